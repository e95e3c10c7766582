"""Global configuration: namespaces, schema defaults, settings."""

import os

# idmXML namespaces per schema generation
NAMESPACE_V1 = "https://standards.buildingsmart.org/IDM/idmXML/0.2"
NAMESPACE_V2 = "https://standards.buildingsmart.org/IDM/idmXML/2.0"

# Schema generation written when the caller does not choose one
DEFAULT_SCHEMA_VERSION = os.getenv("IDMXML_SCHEMA_VERSION", "2.0")

# Level used by the CLI's log handler
LOG_LEVEL = os.getenv("IDMXML_LOG_LEVEL", "WARNING")

# Filler unit inserted into empty leaf ERs (ISO 29481-3 Clause 10)
PLACEHOLDER_IU_NAME = "Placeholder"
PLACEHOLDER_IU_DATA_TYPE = "String / Text"
PLACEHOLDER_IU_DEFINITION = (
    "Placeholder information unit added for ISO 29481-3 compliance: "
    "an exchange requirement shall contain at least one information unit."
)

# Defaults supplied by the encoder where the schema requires content
DEFAULT_AUTHOR_NAME = "IDM Author"
DEFAULT_COPYRIGHT = "All rights reserved."
DEFAULT_USE = "coordination"
DEFAULT_REGION = "international"
DEFAULT_PROJECT_STAGE = "design"
DEFAULT_DATA_TYPE = "String / Text"
DEFAULT_CHANGE_SUMMARY = "Initial version"
ROOT_ER_NAME = "Root Exchange Requirement"

# Process map defaults
DIAGRAM_FILE_PATH = "process-map.bpmn"
DIAGRAM_NOTATION = "BPMN 2.0"
DIAGRAM_NAME = "Process Map"

# Directory used for figure references inside a bundle
FIGURE_DIR = "images"
