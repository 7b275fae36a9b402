"""Agenda: recurring-event calendar backend."""
