"""
Service layer: conversation, session registry, payments, messaging and the
fulfillment notifier.
"""
