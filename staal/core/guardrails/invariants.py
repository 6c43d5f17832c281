from staal.core.contracts.loader import ContractViolation


def assert_initial_prompt(prompt: str) -> None:
    if not prompt or not isinstance(prompt, str) or not prompt.strip():
        raise ContractViolation("Initial prompt is a hard requirement")


def assert_reply_produced(sent: bool, response: str) -> None:
    if not sent:
        raise ContractViolation(f"Handled a response without producing a reply: {response[:200]}")
