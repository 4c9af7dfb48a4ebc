import re

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'

pattern = re.compile(r"(?<=[a-z])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
def camel_to_snake(a_str):
    return pattern.sub('_', a_str).lower()

address_pattern = re.compile(r"^0x[0-9a-f]{40}$")
def is_address(value):
    return isinstance(value, str) and bool(address_pattern.match(value.lower()))

def extract_title(description):
    """
    First line of a proposal/candidate description, without the markdown heading marks.
    """
    if not description:
        return None

    first_line = description.strip().split('\n')[0]
    title = first_line.lstrip('#').strip()

    return title or None

def candidate_id(proposer, slug):
    return f"{proposer.lower()}-{slug}"

def secret_text(t, n):
    if len(t) > ((2 * n) + 3):
        return t[:n] + "..." + t[-1 * n:]
    else:
        return t[:n] + "***..."
