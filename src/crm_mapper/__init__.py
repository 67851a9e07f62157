"""Map nonprofit donation exports onto CRM import formats with LLM-generated rules."""

__version__ = "0.1.0"
