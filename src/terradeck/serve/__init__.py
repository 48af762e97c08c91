"""Server runtime package for exposing the deployment registry via HTTP."""

__all__: list[str] = []
