from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class XmlConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    use_base64: Annotated[
        bool,
        Field(
            description=(
                "Leaf encoding mode for primitives.\n"
                "False writes each primitive as decimal text in a 'value' attribute.\n"
                "True writes the Base64 of its raw native bytes in a 'base64' attribute.\n"
                "The mode applies to every primitive of one dump or load call."
            ),
            default=False
        )
    ]


DEFAULT_XML_CONFIG = XmlConfig()
