"""Domain services: roster, sessions, care records, chat and live queries."""
