# CLI module
