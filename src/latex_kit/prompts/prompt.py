from jinja2 import Environment, StrictUndefined
from pydantic import BaseModel

_env = Environment(
    autoescape=False,  # plain text prompts, not HTML
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


class Prompt(BaseModel):
    name: str
    version: str
    description: str
    inputs: dict[str, str]
    template: str

    class Config:
        extra = "forbid"

    def render(self, **values: str) -> str:
        """Render the Jinja2 template with the declared inputs.

        Raises:
            ValueError: If a value is passed for an undeclared input.
            jinja2.UndefinedError: If the template uses a variable that
                was not passed.
        """
        unknown = set(values) - set(self.inputs)
        if unknown:
            raise ValueError(
                f"Prompt '{self.name}' has no inputs named: {', '.join(sorted(unknown))}"
            )
        return _env.from_string(self.template).render(**values)
