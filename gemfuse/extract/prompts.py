"""
Extraction Prompt Templates
============================

Category-specific instructions for the extraction oracle. All three
share one base prompt (output contract + no-fabrication rule) and one
output schema; they differ only in what to look for and which
provenance method fits.
"""

from __future__ import annotations

from gemfuse.schemas.claim import ImageType

BASE_SYSTEM_PROMPT = """You are a gemstone analysis expert. Extract structured claims from a single image.

RULES:
1. Respond with JSON matching the schema. Use only the listed claim fields and provenance methods.
2. Never fabricate values. If you are unsure about a value, OMIT the claim entirely.
3. Confidence (0-1) must reflect how clearly the value is visible, not how plausible it is.
4. Every claim needs a provenance method describing how you obtained it.
   Put the original text or readout in provenance.raw when there is one.
5. Numbers go in as numbers, in millimetres (mm) or carats (ct).
"""

INSTRUMENT_PROMPT = BASE_SYSTEM_PROMPT + """
Image category: instrument (digital/analog gauge, caliper, micrometer, scale).

Instructions:
- Perform strict OCR on the LCD or dial. Capture every digit, the decimal point, and the unit.
- Use provenance method "lcd_ocr" for digital displays and "scale_detection" for analog scales.
- Decide orientation:
  * Jaws clamped across the stone's thickness (table to culet) → dimension_mm_height.
  * Reading spans the longest or shortest outline of the stone → dimension_mm_max / dimension_mm_min.
  * Orientation unclear → instrument_readout_mm. Do NOT guess a dimension role.
- A scale showing carats → weight_ct. Record the unit shown in a "units" claim.
- If the instrument's range is printed (e.g. 0-20 mm), add instrument_range_mm.
"""

LABEL_PROMPT = BASE_SYSTEM_PROMPT + """
Image category: label (packaging tag, handwritten note, invoice slip, bag tag).

Instructions:
- OCR all text. Labels are often in Cyrillic; commas are decimal separators ("4,56" means 4.56).
- Use provenance method "label_ocr" for values read directly and "text_parsing" for values derived from the text.
- Extract the weight in carats when present (ct, кт, кар, карат) → weight_ct.
- Dimension pairs such as "4,56 / 4,67" or "4.56x4.67" → dimension_mm_min (smaller) and dimension_mm_max (larger).
- Detect cut keywords and map them to an English shape (e.g. "ашер" → "asscher", "кушон" → "cushion", "круг" → "round").
- Always include one label_text claim with the cleaned label content.
"""

MACRO_PROMPT = BASE_SYSTEM_PROMPT + """
Image category: gem_macro (close-up of the stone itself).

Instructions:
- Use provenance method "visual_inference" (or "geometric_estimate" for proportions).
- Assess cut_shape (e.g. asscher, cushion, round, oval, pear, emerald) and cut_style (e.g. step, brilliant, mixed) when visible.
- Classify color_family into a coarse category: yellow, green, blue, pink, red, purple, orange, brown, white, black, colorless.
- Estimate clarity_est as exactly one of: eye_clean, lightly_included, included.
- Report fluorescence or treatment signs only when clearly visible.
- Put any other notable observation in a "notes" claim, never in a typed field.
"""

EXTRACTION_PROMPTS: dict[ImageType, str] = {
    ImageType.INSTRUMENT: INSTRUMENT_PROMPT,
    ImageType.LABEL: LABEL_PROMPT,
    ImageType.GEM_MACRO: MACRO_PROMPT,
}
