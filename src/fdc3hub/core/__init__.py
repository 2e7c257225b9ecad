"""Broker core: transport-agnostic routing state."""
