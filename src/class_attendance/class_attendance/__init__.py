"""Class attendance package.

Organized by feature modules (sessions, attendance, requests, reports, ...)
with a thin Flask controller layer over service/repository layers.
"""
