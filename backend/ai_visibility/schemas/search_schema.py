from pydantic import BaseModel, ConfigDict, Field, field_validator


class SearchQuery(BaseModel):
    """A single templated search query.

    Whitespace is collapsed on construction so that a template rendered
    without an industry never carries double spaces.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1)

    @field_validator("text")
    @classmethod
    def _collapse_whitespace(cls, value: str) -> str:
        return " ".join(value.split())


class SearchResult(BaseModel):
    """Raw external search hit. Consumed only by the extraction prompt."""

    title: str = ""
    link: str = ""
    snippet: str = ""

    def as_prompt_line(self) -> str:
        return f"{self.title}: {self.snippet}"
