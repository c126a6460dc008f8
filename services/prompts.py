# WORKFLOW: Prompt templates and response schema for tariff-code extraction.
# Used by: Extraction client (text chunks and page images)
# Contents:
# 1. SYSTEM_PROMPT - Fixed domain instructions for tariff nomenclature listings
# 2. TEXT_PROMPT_TEMPLATE - User message for one text chunk
# 3. PAGE_PROMPT_TEMPLATE - User message for one page image (also asks for a transcription)
# 4. RESPONSE_SCHEMA - JSON schema passed as the structured output format and used to check replies
#
# The model is asked for a structured list, never free text.

SYSTEM_PROMPT = """
You are an expert in customs tariff nomenclature. Extract EVERY tariff code and its
designation from the content you are given.

TABLE FORMAT:
- CODE: often a single column such as "0303.14 00 00" (heading 4 digits, subheading
  2 digits, extension 2 digits, national extension 2 digits)
- DESIGNATION: product label
- RATE: duty rate as a number (10 means 10%)
- UNIT: u, kg, l, m, m2, m3, t, g, pair, 1000u

RULES:
1. Keep the code as it appears in "code", always as a string with its leading zeros
   ("0101.21.00", never 101.21); separators (dots, spaces) are allowed.
2. Partial codes such as "15 00" or "10" inherit the prefix of the code above them:
   put that parent code in "parent_code".
3. Dashes at the start of a label ("– – –") mark sub-category rows: keep those rows
   and keep the dashes in the label.
4. A rate of "-" means exemption: return 0.
5. Restriction markers such as (a), (b), (1) go into "notes".
6. Never invent codes that are not in the content.

Return ONLY a JSON object matching the requested schema.
"""

TEXT_PROMPT_TEMPLATE = """
Extract all tariff codes from this part of the document ({unit_label}):

{content}
"""

PAGE_PROMPT_TEMPLATE = """
This image is page {page_number} of a customs tariff listing ({unit_label}).
Extract all tariff codes on the page, and put a plain transcription of the table rows
in "page_text", one row per line, formatted as: CODE | DESIGNATION | RATE | UNIT
"""

_CANDIDATE_SCHEMA = {
    "type": "object",
    "properties": {
        "code": {"type": ["string", "null"]},
        "label": {"type": ["string", "null"]},
        "unit": {"type": ["string", "null"]},
        "rate": {"type": ["number", "string", "null"]},
        "notes": {"type": ["string", "null"]},
        "parent_code": {"type": ["string", "null"]},
    },
}

RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "codes": {"type": "array", "items": _CANDIDATE_SCHEMA},
        "page_text": {"type": ["string", "null"]},
    },
    "required": ["codes"],
}
