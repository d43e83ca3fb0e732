"""Biography Q&A relay backed by OpenAI chat completions."""
