"""Business domains: shops, queue and billing"""
