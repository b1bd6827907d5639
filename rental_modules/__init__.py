"""Domain modules of the lease payment engine: lease lifecycle and distribution."""
