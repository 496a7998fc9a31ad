# investo/email_system/__init__.py
"""
Email system for Investo.
Delivers user notifications over SMTP.
"""
from email_system.services.email_service import EmailService

__all__ = ['EmailService']
