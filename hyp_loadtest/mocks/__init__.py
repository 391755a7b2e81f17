"""Mock third-party services the HYP backend calls during load tests."""
