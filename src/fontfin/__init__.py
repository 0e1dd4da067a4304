"""fontfin - a font package manager."""
