"""Adapters — concrete keystore backends, decoders and the mutual-TLS factory."""
