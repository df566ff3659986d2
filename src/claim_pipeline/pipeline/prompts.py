"""Prompt templates for text cleaning and report generation.

The prompts are in Slovak because the documents and reports are.
"""

# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------

CLEANING_SYSTEM_PROMPT = """Si lingvistický expert. Tvojou úlohou je opraviť gramatické chyby, preklepy a jazykové nedostatky v texte BEZ ZMENY KONTEXTU A VÝZNAMU.

PRAVIDLÁ:
- Oprav len gramatické chyby, preklepy, interpunkciu
- NIKDY nemeň fakty, čísla, mená (aj keď sú anonymizované ako [PERSON_NAME] alebo [OSOBA_1])
- NIKDY nevypúšťaj ani nepridávaj informácie
- NIKDY nemeň štruktúru textu
- Zachovaj všetky anonymizované značky presne ako sú (napr. [PERSON_NAME], [PHONE_NUMBER], [OSOBA_1], [EMAIL_1])
- Ak je text v slovenčine, oprav slovenské gramatické chyby
- Ak je v ňom zmiešaný jazyk, oprav len gramatiku, nie jazyk samotný

Vráť CELÝ opravený text."""


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

# (key, description, max words) for a single-document report
DOCUMENT_REPORT_FIELDS = (
    ("summary", "Stručný súhrn lekárskej správy", 200),
    ("relevance_analysis", "Analýza relevantných bodov voči poisteniu", 300),
    ("exclusions_analysis", "Identifikácia možných výluk", 200),
    ("recommendation", "Jasné odporúčanie (schváliť/zamietnuť/vyžiadať ďalšie info)", 50),
    ("justification", "Zdôvodnenie s konkrétnymi citáciami z dodaných dokumentov", 300),
)

# Larger budgets for the multi-document claim report
CLAIM_REPORT_FIELDS = (
    ("summary", "Komplexný súhrn VŠETKÝCH lekárskych správ s dátumami a diagnózami", 400),
    ("relevance_analysis", "Analýza relevantných bodov voči poisteniu z VŠETKÝCH dokumentov", 400),
    ("exclusions_analysis", "Identifikácia možných výluk na základe VŠETKÝCH správ", 300),
    ("recommendation", "Jasné odporúčanie (schváliť/zamietnuť/vyžiadať ďalšie info)", 100),
    ("justification", "Zdôvodnenie s konkrétnymi citáciami z KONKRÉTNYCH dokumentov", 400),
)

DOCUMENT_REPORT_INTRO = """Si expert na likvidáciu poistných udalostí v oblasti životného a úrazového poistenia.
Tvojou úlohou je analyzovať nasledujúce dokumenty a vytvoriť štruktúrovaný report pre interného likvidátora.

Zameraj sa na:
1. Súlad medzi lekárskou správou a poistnými podmienkami
2. Kľúčové diagnózy a navrhované liečebné postupy
3. Identifikáciu prípadných výluk z poistenia
4. Jasné a vecne podložené odporúčanie"""

CLAIM_REPORT_INTRO = """Si expert na likvidáciu poistných udalostí v oblasti životného a úrazového poistenia.
Tvojou úlohou je analyzovať VŠETKY priložené lekárske správy a vytvoriť JEDEN komplexný report pre interného likvidátora."""

DOCUMENT_DELIMITER = "\n\n" + "=" * 80 + "\n\n"

JSON_RESPONSE_FORMAT = {"type": "json_object"}


def _json_shape(fields) -> str:
    lines = [f'  "{key}": "{description} - max {limit} slov"' for key, description, limit in fields]
    return "{\n" + ",\n".join(lines) + "\n}"


def document_report_system_prompt() -> str:
    return (
        f"{DOCUMENT_REPORT_INTRO}\n\n"
        "Odpoveď MUSÍ byť v JSON formáte s nasledujúcou štruktúrou:\n"
        f"{_json_shape(DOCUMENT_REPORT_FIELDS)}"
    )


def claim_report_system_prompt(base_prompt: str | None = None, custom_instruction: str | None = None) -> str:
    """System prompt for the claim report.

    base_prompt replaces the default introduction (analysis types); the JSON
    shape is always appended so the response contract cannot be overridden.
    """
    prompt = base_prompt.strip() if base_prompt and base_prompt.strip() else CLAIM_REPORT_INTRO
    if custom_instruction:
        prompt += f"\n\nDOPLŇUJÚCE INŠTRUKCIE: {custom_instruction}"
    return (
        f"{prompt}\n\n"
        "Odpoveď MUSÍ byť v JSON formáte s nasledujúcou štruktúrou:\n"
        f"{_json_shape(CLAIM_REPORT_FIELDS)}"
    )


def _claim_header(claim_info: dict[str, str]) -> str:
    return (
        "Poistná udalosť:\n"
        f"Číslo: {claim_info.get('claim_number', '')}\n"
        f"Klient: {claim_info.get('client_name', '')}\n"
        f"Číslo poistky: {claim_info.get('policy_number', '')}\n"
        f"Typ: {claim_info.get('claim_type', '')}"
    )


def document_report_user_prompt(claim_info: dict[str, str], document_text: str, context_text: str) -> str:
    return (
        f"{_claim_header(claim_info)}\n\n"
        f"LEKÁRSKA SPRÁVA (anonymizovaná):\n{document_text}\n\n"
        f"KONTEXT POISTENIA:\n{context_text}\n\n"
        "Vygeneruj report v JSON formáte."
    )


def claim_report_user_prompt(claim_info: dict[str, str], documents_text: str, context_text: str) -> str:
    return (
        f"{_claim_header(claim_info)}\n\n"
        f"LEKÁRSKE SPRÁVY (anonymizované, po kontrole likvidátorom):\n{documents_text}\n\n"
        f"KONTEXT POISTENIA:\n{context_text}\n\n"
        "Vygeneruj komplexný report v JSON formáte."
    )


def format_documents(documents: list[tuple[str, str]]) -> str:
    """Join (file_name, text) pairs with name headers and a separator line."""
    return DOCUMENT_DELIMITER.join(
        f"=== DOKUMENT: {file_name} ===\n\n{text}" for file_name, text in documents
    )
