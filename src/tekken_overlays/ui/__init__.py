"""NiceGUI control and overlay pages."""
