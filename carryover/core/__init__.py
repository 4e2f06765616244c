"""Pure building blocks: settings, panel schemas, report grammar and quota rules."""
