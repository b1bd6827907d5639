"""rental_batch.services -- batch execution engine."""
