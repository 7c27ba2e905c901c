"""Quote-aware splitter for one physical line of a delimited file."""

from typing import List


def parse_line(line: str, delimiter: str = ",", quote: str = '"') -> List[str]:
    """Split a single line into its field values.

    A doubled quote inside a quoted span becomes one literal quote, and a
    delimiter inside a quoted span is kept as text. Quote state is local to
    the call, so an unterminated quote simply runs to the end of the line.
    Header and data rows go through the same function, which keeps column
    positions aligned between them.
    """
    fields = []
    current = []
    in_quotes = False
    i = 0
    length = len(line)

    while i < length:
        ch = line[i]
        if ch == quote:
            if in_quotes and i + 1 < length and line[i + 1] == quote:
                current.append(quote)
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1

    fields.append("".join(current))
    return fields
