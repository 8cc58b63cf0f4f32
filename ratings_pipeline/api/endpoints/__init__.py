"""API Endpoint-Module"""
