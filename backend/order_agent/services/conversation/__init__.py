"""
Conversation state machine and its helpers: cart arithmetic, reply
directives and status messages.
"""
