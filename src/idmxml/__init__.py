"""
idmxml – Exchange Requirements and idmXML for ISO 29481
========================================================
Model, editing, validation and idmXML codec for Information Delivery
Manuals: Exchange Requirements (ER) with their Information Units (IU),
header metadata, and the idmXSD v1 (idmXML/0.2) and v2 (idmXML/2.0)
document formats.

Quick Start::

    from idmxml import (
        ERForest, ExchangeRequirementBuilder, HeaderBuilder, IdmDocument,
        IdmXmlReader, IdmXmlWriter, InformationUnitBuilder, ProjectValidator,
    )

    er = (
        ExchangeRequirementBuilder("Structural model handover")
        .description("Analysis model delivered at design stage end")
        .unit(
            InformationUnitBuilder("Load-bearing walls")
            .mandatory()
            .definition("All walls carrying vertical loads")
            .maps_to("IfcWall", basis="IFC4")
        )
        .build()
    )
    document = IdmDocument(
        header=HeaderBuilder("Structural coordination").person("Ada", "Lovelace").build(),
        forest=ERForest.from_root(er),
    )

    print(ProjectValidator().validate(document).status_label())

    # Write, keep the generated GUIDs, read back
    result = IdmXmlWriter(schema="2.0").write(document)
    result.apply(document)
    again = IdmXmlReader().parse(result.xml)
    assert again.forest.root.guid == er.guid
"""

__version__ = "0.1.0"
__idmxsd_versions__ = ("1.0", "2.0")

# Core models
from .models.exchange import (
    DataType,
    ExchangeRequirement,
    ExternalElementMapping,
    Figure,
    InformationUnit,
    MvdReference,
    generate_guid,
    generate_id,
    placeholder_unit,
)
from .models.header import (
    Actor,
    ChangeEntry,
    ChangeLog,
    DocumentGuids,
    DocumentStatus,
    HeaderData,
    LocalProjectStage,
    OrganizationAuthor,
    PersonAuthor,
    author_display_name,
    format_person_name,
)
from .models.forest import ERForest, NodeLocation
from .models.document import DiagramElement, DiagramReference, IdmDocument, SchemaVersion

# Builders
from .builder.er_builder import ExchangeRequirementBuilder, InformationUnitBuilder
from .builder.header_builder import HeaderBuilder

# Structural editing
from .editing.structure import (
    attach_as_sub_er,
    convert_to_sub_er,
    delete,
    indent,
    move_down,
    move_up,
    outdent,
    refresh_data_object_links,
    switch_root,
)

# idmXML I/O
from .codec.reader import IdmXmlReader
from .codec.writer import EncodeResult, IdmXmlWriter
from .codec.schema import (
    VersionDetection,
    detect_schema_version,
    is_idmxml,
    normalize_region_code,
    normalize_stage,
    region_name,
)
from .bundle.figures import collect_figure_payloads, restore_figure_data

# Validator
from .validator.conformance import (
    Category,
    DiagramValidator,
    ExchangeRequirementValidator,
    HeaderValidator,
    ProjectValidator,
    Severity,
    ValidationIssue,
    ValidationResult,
)

from .exceptions import IdmXmlError, IdmXmlParseError

__all__ = [
    # Models
    "DataType",
    "ExchangeRequirement",
    "ExternalElementMapping",
    "Figure",
    "InformationUnit",
    "MvdReference",
    "generate_guid",
    "generate_id",
    "placeholder_unit",
    "Actor",
    "ChangeEntry",
    "ChangeLog",
    "DocumentGuids",
    "DocumentStatus",
    "HeaderData",
    "LocalProjectStage",
    "OrganizationAuthor",
    "PersonAuthor",
    "author_display_name",
    "format_person_name",
    "ERForest",
    "NodeLocation",
    "DiagramElement",
    "DiagramReference",
    "IdmDocument",
    "SchemaVersion",
    # Builders
    "ExchangeRequirementBuilder",
    "InformationUnitBuilder",
    "HeaderBuilder",
    # Editing
    "attach_as_sub_er",
    "convert_to_sub_er",
    "delete",
    "indent",
    "move_down",
    "move_up",
    "outdent",
    "refresh_data_object_links",
    "switch_root",
    # idmXML I/O
    "IdmXmlReader",
    "IdmXmlWriter",
    "EncodeResult",
    "VersionDetection",
    "detect_schema_version",
    "is_idmxml",
    "normalize_region_code",
    "normalize_stage",
    "region_name",
    "collect_figure_payloads",
    "restore_figure_data",
    # Validation
    "Category",
    "DiagramValidator",
    "ExchangeRequirementValidator",
    "HeaderValidator",
    "ProjectValidator",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    # Errors
    "IdmXmlError",
    "IdmXmlParseError",
]
