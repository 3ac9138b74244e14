"""
Realtime chat relay app.

This app contains:
- A Channels consumer for `/ws/chat/<session_key>/`
- In-memory identity, session and connection directories (single process)
- Message routing and presence broadcast between live connections
- JSON views for registration, login and the mutual contact list
"""
