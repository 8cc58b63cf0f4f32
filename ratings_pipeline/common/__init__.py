"""Gemeinsame Hilfsfunktionen: Konstanten, Parsing, Logging, Playwright"""
