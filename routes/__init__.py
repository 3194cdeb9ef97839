"""HTTP routers mounted by server.py."""
