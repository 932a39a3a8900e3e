"""Policy engine service: versioned loan policies and their evaluation."""
