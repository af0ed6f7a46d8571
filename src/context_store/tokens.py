CHARS_PER_TOKEN = 4


def count_tokens(text: str) -> int:
    """Estimate the token cost of ``text`` at roughly four characters per token.

    Pure function of its input so a stored ``token_count`` can always be
    reproduced from the stored content.
    """
    return len(text) // CHARS_PER_TOKEN
