"""
Extraction prompt for space-weather notification reports.
"""

SYSTEM_PROMPT = (
    "You are a precise data extraction tool that extracts poorly structured "
    "data from NASA Donki reports."
)

_CME_SCHEMA = """{
          "event_type": "string",
          "start_time": "string",
          "speed": {"value": "string", "unit": "string"},
          "type": "string",
          "direction": "string",
          "half_angle_width": {"value": "string", "unit": "string"},
          "detecting_spacecraft": "string"
        }"""

REPORT_SCHEMA = """{
  "header": {
    "source": "string",
    "message_type": "string",
    "issue_date": "string",
    "coverage_begin_date": "string",
    "coverage_end_date": "string",
    "message_id": "string",
    "disclaimer": "string"
  },
  "summary": {
    "solar_activity": "string",
    "cme_impacts": [
      {
        "start_time": "string",
        "predicted_impacts": [
          {
            "location": "string",
            "arrival_time": "string",
            "impact_type": "string",
            "notification": "string"
          }
        ]
      }
    ],
    "geomagnetic_activity": "string",
    "energetic_electron_flux": "string",
    "energetic_proton_flux": "string",
    "space_weather_impact": "string"
  },
  "events": {
    "flares": [
      {
        "event_type": "string",
        "date": "string",
        "start_time": "string",
        "stop_time": "string",
        "peak_time": "string",
        "class": "string",
        "location": "string"
      }
    ],
    "cmes": {
      "earth_directed": [
        %(cme)s
      ],
      "non_earth_directed": [
        %(cme)s
      ]
    }
  },
  "outlook": {
    "coverage_begin_date": "string",
    "coverage_end_date": "string",
    "solar_activity": "string",
    "geomagnetic_activity": "string"
  },
  "notes": "string",
  "ai_summary": "string"
}""" % {"cme": _CME_SCHEMA}

FORMATTING_RULES = """- Use "event_type" to label events as "Flare" or "CME".
- For tables (flares, CMEs), maintain the exact order of events as in the input.
- Categorize CMEs into "earth_directed" and "non_earth_directed" based on the report's explicit sections "Earth directed" and "Non-Earth directed (POS = Plane Of Sky)". If a CME is listed under "Earth directed", place it in "earth_directed"; otherwise, place it in "non_earth_directed".
- Include units for table data (e.g., speed in km/s, half_angle_width in degrees).
- Format all dates as "Month Day, Year HH:MM UTC" (e.g., "July 3, 2025 07:08 UTC").
- If a field is missing, use null.
- For the "ai_summary", provide a 2-3 sentence summary for the general public, explaining the report's significance in simple terms."""


def build_extraction_prompt(report_text: str) -> str:
    """Build the user message asking for the report as a JSON object."""
    return (
        "Extract the following NASA Donki report into a structured JSON object with clearly "
        "labeled fields (such as event type, date, location, summary, and any other relevant "
        "information). The report is markdown, poorly structured and inconsistent.\n"
        "Convert dates to a nice format visually.\n"
        "For data in tables make sure we store the units for the data.\n"
        "Make sure you keep the order of events in the tables.\n"
        "Return only the JSON object, adhering to the following schema:\n\n"
        f"{REPORT_SCHEMA}\n\n"
        f"{FORMATTING_RULES}\n\n"
        f'Report:\n"""\n{report_text}\n"""\n\n'
        "Return only the JSON object."
    )
