"""Pure domain layer: values, workflow rules, ledger arithmetic, DTOs."""
