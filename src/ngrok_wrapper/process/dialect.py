"""Command-line dialects of the ngrok major version families."""

from pydantic import BaseModel, ConfigDict


class CommandDialect(BaseModel):
    """How one ngrok version family spells its flags."""

    model_config = ConfigDict(frozen=True)

    prefix: str
    joined: bool
    add_authtoken: tuple[str, ...]

    def flag(self, name: str, value: str) -> list[str]:
        if self.joined:
            return [f"{self.prefix}{name}={value}"]
        return [f"{self.prefix}{name}", value]

    def start_args(
        self,
        config_path: str,
        auth_token: str | None = None,
        region: str | None = None,
    ) -> list[str]:
        """Arguments for ``ngrok start`` with logfmt records on stdout."""
        args = ["start", "--none"]
        args += [f"{self.prefix}log=stdout", f"{self.prefix}log-format=logfmt"]
        args += self.flag("config", config_path)
        if auth_token:
            args += self.flag("authtoken", auth_token)
        if region:
            args += self.flag("region", region)
        return args

    def authtoken_args(self, auth_token: str, config_path: str) -> list[str]:
        """Arguments that persist an auth token into the config file."""
        return [*self.add_authtoken, auth_token, *self.flag("config", config_path)]


DIALECTS: dict[str, CommandDialect] = {
    "v2": CommandDialect(prefix="-", joined=True, add_authtoken=("authtoken",)),
    "v3": CommandDialect(
        prefix="--", joined=False, add_authtoken=("config", "add-authtoken")
    ),
}
