"""Core types shared across crmkit."""
