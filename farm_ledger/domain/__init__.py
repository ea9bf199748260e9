"""Pure core: no sessions, no I/O.  Payload types, GL rules, costing, time."""
