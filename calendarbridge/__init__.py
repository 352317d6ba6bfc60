"""
calendarbridge - book, reschedule and cancel appointments on Google, Outlook
and Calendly calendars from a phone assistant.
"""

__version__ = "0.1.0"
