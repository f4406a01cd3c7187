"""One detector function per vulnerability class, grouped by theme."""
