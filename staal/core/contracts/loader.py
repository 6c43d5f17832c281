import yaml
from jsonschema import validate, ValidationError
from pathlib import Path


CONTRACTS_DIR = Path(__file__).resolve().parent / "schemas"


class ContractViolation(Exception):
    pass


def load_schema(name: str) -> dict:
    schema_path = CONTRACTS_DIR / name
    if not schema_path.exists():
        raise ContractViolation(f"Missing required contract schema: {schema_path}")

    with open(schema_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def validate_config(config: dict) -> None:
    schema = load_schema("config.schema.yaml")
    try:
        validate(instance=config, schema=schema)
    except ValidationError as e:
        raise ContractViolation(f"Config validation failed: {e.message}")
