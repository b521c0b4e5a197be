"""LangGraph Platform compatible REST adapter and client."""
