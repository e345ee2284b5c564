"""Networked deployment of ptymux.

A FastAPI application that authenticates remote consumers, lists the
browsable project directories, and relays one Process Session per
WebSocket connection.
"""
