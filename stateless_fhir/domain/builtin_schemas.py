"""Built-in schema table for the clinical resource types.

Plain data, no code: each resource type maps to an ordered list of
FieldMapping-shaped dicts. ``SchemaRegistry.default()`` validates this table
once at startup.

Identifier columns (``patient_id``, ``id``) are required; every other column
is nullable. Paths are relative to the resource object, whether it arrived
as a singleton document or as ``entry[n].resource`` of a bundle.
"""

_REQUIRED = "error_if_absent"


def _column(column: str, path: str, **options) -> dict:
    mapping = {"column": column, "path": path}
    mapping.update(options)
    return mapping


PATIENT_FIELDS = [
    _column("patient_id", "id", default=_REQUIRED),
    _column("first_name", "name[0].given[0]"),
    _column("last_name", "name[0].family"),
    _column("gender", "gender"),
    _column("birth_date", "birthDate", kind="date"),
    _column("address_line", "address[0].line[0]"),
    _column("city", "address[0].city"),
    _column("state", "address[0].state"),
    _column("postal_code", "address[0].postalCode"),
    _column("country", "address[0].country"),
]

ENCOUNTER_FIELDS = [
    _column("id", "id", default=_REQUIRED),
    _column("lastUpdated", "meta.lastUpdated"),
    _column("type_code", "type[0].coding[0].code"),
    _column("type_system", "type[0].coding[0].system"),
    _column("type_display", "type[0].coding[0].display"),
    _column("class_code", "class.code"),
    _column("class_system", "class.system"),
    _column("class_display", "class.display"),
    _column("period_start", "period.start"),
    _column("period_end", "period.end"),
    _column("status", "status"),
    _column("subject_display", "subject.display"),
    _column("subject_reference", "subject.reference"),
    _column("location", "location[0].location", kind="json"),
    _column("diagnosis_reference", "diagnosis[0].condition.reference"),
    _column("extension_url", "extension[0].url"),
    _column("extension_valueString", "extension[0].valueString"),
    _column("identifier_value", "identifier[0].value"),
    _column("reasonCode_code", "reasonCode[0].coding[0].code"),
    _column("reasonCode_system", "reasonCode[0].coding[0].system"),
    _column("serviceType_code", "serviceType.coding[0].code"),
    _column("serviceType_system", "serviceType.coding[0].system"),
    _column("admitSource_code", "hospitalization.admitSource.coding[0].code"),
    _column("dischargeDisposition_code", "hospitalization.dischargeDisposition.coding[0].code"),
    _column("reasonReference_reference", "reasonReference[0].reference"),
]

CONDITION_FIELDS = [
    _column("id", "id", default=_REQUIRED),
    _column("code", "code.coding[0].code"),
    _column("code_system", "code.coding[0].system"),
    _column("code_display", "code.coding[0].display"),
    _column("lastUpdated", "meta.lastUpdated"),
    _column("subject_display", "subject.display"),
    _column("subject_reference", "subject.reference"),
    _column("encounter_display", "encounter.display"),
    _column("encounter_reference", "encounter.reference"),
    _column("onsetDateTime", "onsetDateTime"),
    _column("category_code", "category[0].coding[0].code"),
    _column("category_system", "category[0].coding[0].system"),
]

SERVICE_REQUEST_FIELDS = [
    _column("id", "id", default=_REQUIRED),
    _column("lastUpdated", "meta.lastUpdated"),
    _column("code", "code.coding[0].code"),
    _column("code_system", "code.coding[0].system"),
    _column("code_display", "code.coding[0].display"),
    _column("category_code", "category[0].coding[0].code"),
    _column("category_code_system", "category[0].coding[0].system"),
    _column("category_code_display", "category[0].coding[0].display"),
    _column("intent", "intent"),
    _column("status", "status"),
    _column("subject_display", "subject.display"),
    _column("subject_reference", "subject.reference"),
    _column("encounter_display", "encounter.display"),
    _column("encounter_reference", "encounter.reference"),
    _column("occurrencePeriod_start", "occurrencePeriod.start"),
    _column("occurrencePeriod_end", "occurrencePeriod.end"),
    _column("occurrenceDateTime", "occurrenceDateTime"),
]

BUILTIN_SCHEMA_TABLE = {
    "Patient": PATIENT_FIELDS,
    "Encounter": ENCOUNTER_FIELDS,
    "Condition": CONDITION_FIELDS,
    "ServiceRequest": SERVICE_REQUEST_FIELDS,
}
