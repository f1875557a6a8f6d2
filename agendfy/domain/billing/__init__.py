"""Billing domain - provider integration, webhook processing and subscription sync"""
