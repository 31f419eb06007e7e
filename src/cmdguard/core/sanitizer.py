"""Command text sanitization.

Rewrites the span a sanitize-action rule matched. Rules carrying an explicit
``replacement`` use it (an empty replacement strips the match); other rules
get the generic placeholder.
"""

from .rules import ValidationRule

GENERIC_PLACEHOLDER = "[SANITIZED]"


class Sanitizer:
    """Apply rule-specific rewrites to command text.

    Stripping is repeated until the text stops changing. A single pass of
    ``../`` removal over ``..././`` leaves ``../`` behind, so one pass is not
    enough to guarantee the output no longer matches the rule.

    Example:
        >>> rule = rules.get("Path Traversal")
        >>> Sanitizer().sanitize("....//etc/passwd", rule)
        'etc/passwd'
    """

    def __init__(self, placeholder: str = GENERIC_PLACEHOLDER):
        self.placeholder = placeholder

    def sanitize(self, text: str, rule: ValidationRule) -> str:
        """Return ``text`` with every match of ``rule`` rewritten."""
        replacement = self.placeholder if rule.replacement is None else rule.replacement

        if replacement:
            # Literal replacement: backslashes in placeholders must not be
            # read as group references.
            return rule.matcher.sub(lambda _m: replacement, text)

        # Each pass shortens the text or leaves it unchanged, so this terminates.
        previous = None
        while previous != text:
            previous = text
            text = rule.matcher.sub("", text)
        return text


_default_sanitizer = Sanitizer()


def sanitize(text: str, rule: ValidationRule) -> str:
    """Sanitize ``text`` for ``rule`` with the generic placeholder."""
    return _default_sanitizer.sanitize(text, rule)
