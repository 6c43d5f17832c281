"""Wire-level vocabulary shared by the canonicalizer, the parser and the prompts."""

SEPARATOR = "=====<<STAAL//YAML//SEPARATOR//2AF2E3DE-0F7B-4D0D-8E7C-5D1B8B1A4F0C>>====="

STATUS = "STAAL_STATUS"
CONTENT_REQUEST = "STAAL_CONTENT_REQUEST"
CONTENT_CHANGE = "STAAL_CONTENT_CHANGE"
CONTENT_DELETE = "STAAL_CONTENT_DELETE"
GET_WORKING_DIRECTORY_STRUCTURE = "STAAL_GET_WORKING_DIRECTORY_STRUCTURE"
CI_LIGHT_REQUEST = "STAAL_CI_LIGHT_REQUEST"
CI_HEAVY_REQUEST = "STAAL_CI_HEAVY_REQUEST"
FINISH_OK = "STAAL_FINISH_OK"
FINISH_NOK = "STAAL_FINISH_NOK"
CONTINUE = "STAAL_CONTINUE"

# Canonical field order per discriminator. Keys outside these tuples are
# dropped from known documents during canonicalization.
COMMAND_FIELDS = {
    STATUS: ("statusMsg",),
    CONTENT_REQUEST: ("filePath", "filePaths"),
    CONTENT_CHANGE: ("filePath", "newContent"),
    CONTENT_DELETE: ("filePath",),
    GET_WORKING_DIRECTORY_STRUCTURE: (),
    CI_LIGHT_REQUEST: (),
    CI_HEAVY_REQUEST: (),
    FINISH_OK: ("prMessage",),
    FINISH_NOK: ("errMessage",),
    CONTINUE: (),
}

KNOWN_TYPES = tuple(COMMAND_FIELDS)


def join_documents(documents) -> str:
    return (SEPARATOR + "\n").join(documents)
