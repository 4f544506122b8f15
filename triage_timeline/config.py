import os

from dotenv import load_dotenv

load_dotenv()

# Summarization windows (defaults for SummarizeConfig)
TIMELINE_VITAL_RECENT_HOURS = float(os.getenv("TIMELINE_VITAL_RECENT_HOURS", "6"))
TIMELINE_CLINICAL_EVENT_DAYS = float(os.getenv("TIMELINE_CLINICAL_EVENT_DAYS", "30"))

# FHIR R4 server used by the patient timeline route
FHIR_BASE_URL = os.getenv("FHIR_BASE_URL", "")
FHIR_TIMEOUT = float(os.getenv("FHIR_TIMEOUT", "45"))
FHIR_MAX_PAGES = int(os.getenv("FHIR_MAX_PAGES", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
