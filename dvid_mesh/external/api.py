"""
URL builders for the DVID node API.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class DVIDInstance:
    """A DVID server plus the repository node requests are addressed to."""
    base_url: str
    node_key: str

    def get_node_api_url(self, path: str = "") -> str:
        return f"{self.base_url}/api/node/{self.node_key}{path}"

    def get_repo_info_url(self) -> str:
        return f"{self.base_url}/api/repos/info"

    def get_key_base_url(self, data_instance: str) -> str:
        """URL under which the keys of a key-value instance live."""
        return self.get_node_api_url(f"/{data_instance}/key")

    @classmethod
    def from_config(cls, config) -> "DVIDInstance":
        return cls(config.server_url, config.node_key)
