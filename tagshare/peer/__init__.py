"""Peer side: control client, data transfer and the runtime loop."""
