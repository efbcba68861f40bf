"""Consent collection, staff admin panel and Dropbox backups for the prion study."""
