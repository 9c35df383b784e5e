"""Services: environment orchestration, backend adapters and template generation."""
