# Core infrastructure: config, errors, store wiring
