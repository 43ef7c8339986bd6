"""CMS core server application."""
