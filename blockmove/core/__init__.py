"""Session lifecycle, render scheduling and sprite physics."""
