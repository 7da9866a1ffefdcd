"""Core values shared by the vote coordinator, the game state machine and the chat glue.

Kept free of FastAPI concerns so it can be reused by API routes, the mock chat feed, and tests.
"""
