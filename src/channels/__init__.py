"""Channel sessions, provider adapters and per-session throttling."""
