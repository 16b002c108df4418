"""Inference engine backends (real and fake)."""
