"""Built-in MapReduce jobs."""
