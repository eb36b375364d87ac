"""Field catalog: the named daily metrics and their record filters.

Order is significant for SQL generation (column list and positional
parameters follow it), not for meaning.
"""

from dmarc_metrics_contracts import AllOf, DataField, Equals, NotEquals, RecordColumn

_DISPOSITION = RecordColumn.DISPOSITION
_SPF = RecordColumn.SPF_RESULT
_DKIM = RecordColumn.DKIM_RESULT

FIELD_CATALOG: tuple[DataField, ...] = (
    DataField(
        name="num_total",
        description="Total messages",
    ),
    DataField(
        name="num_rejected",
        description="Rejected messages",
        predicate=Equals(column=_DISPOSITION, value="reject"),
    ),
    DataField(
        name="num_quarantined",
        description="Quarantined messages",
        predicate=Equals(column=_DISPOSITION, value="quarantine"),
    ),
    DataField(
        name="num_align_failed",
        description=(
            "Messages that pass SPF and DKIM but with strange From: address "
            "(probable misconfiguration)"
        ),
        predicate=AllOf(
            terms=(
                Equals(column=RecordColumn.SPF_ALIGN, value="fail"),
                Equals(column=RecordColumn.DKIM_ALIGN, value="fail"),
            )
        ),
    ),
    DataField(
        name="num_dkim_failed",
        description="Messages that pass SPF but not DKIM (probable DKIM misconfiguration)",
        predicate=AllOf(
            terms=(
                Equals(column=_DKIM, value="fail"),
                NotEquals(column=_SPF, value="fail"),
            )
        ),
    ),
    DataField(
        name="num_spf_failed",
        description=(
            "Messages that pass DKIM but not SPF "
            "(probable SPF record misconfiguration, missing IPs)"
        ),
        predicate=AllOf(
            terms=(
                Equals(column=_SPF, value="fail"),
                NotEquals(column=_DKIM, value="fail"),
            )
        ),
    ),
    DataField(
        name="num_spf_dkim_failed",
        description="Messages that do not pass SPF nor DKIM (spam)",
        predicate=AllOf(
            terms=(
                Equals(column=_SPF, value="fail"),
                Equals(column=_DKIM, value="fail"),
            )
        ),
    ),
    DataField(
        name="num_dkim_permerror",
        description="Messages with a permanent DKIM error",
        predicate=Equals(column=_DKIM, value="permerror"),
    ),
    DataField(
        name="num_spf_permerror",
        description="Messages with a permanent SPF error",
        predicate=Equals(column=_SPF, value="permerror"),
    ),
)

FIELD_NAMES: tuple[str, ...] = tuple(field.name for field in FIELD_CATALOG)


def get_field(name: str) -> DataField:
    """Look up a catalog field by name.

    Raises:
        KeyError: If no field has that name
    """
    for field in FIELD_CATALOG:
        if field.name == name:
            return field
    raise KeyError(name)
