"""Shared plumbing for Paxos peers: logging, metrics, HTTP client, env helpers."""
