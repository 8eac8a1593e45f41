"""Billing domain - Stripe invoicing, payment retries, Pin Payments and webhooks"""
