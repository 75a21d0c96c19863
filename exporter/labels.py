# exporter/labels.py
import re
from dataclasses import dataclass
from types import MappingProxyType

TAG_LABEL_PREFIX = "aws_tag_"

_CLEAN_RE = re.compile(r"[^A-Za-z0-9]")


def tag_label_name(key: str) -> str:
    """
    Map an EC2 tag key to a metric label name, e.g. "Team" -> "aws_tag_team".

    Different keys can collide ("cost-centre" and "Cost Centre"); they share
    one label and the last configured key wins.
    """
    cleaned = _CLEAN_RE.sub("_", key).strip("_").lower()
    return TAG_LABEL_PREFIX + cleaned


@dataclass(frozen=True)
class TagSchema:
    """Tag-derived labels appended to every per-instance metric family."""

    tag_labels: MappingProxyType  # tag key -> label name, in configured order
    label_names: tuple

    @classmethod
    def from_taglist(cls, taglist: str | None) -> "TagSchema":
        keys = [k.strip() for k in (taglist or "").split(",") if k.strip()]
        return cls.from_keys(keys)

    @classmethod
    def from_keys(cls, keys) -> "TagSchema":
        mapping = {}
        for key in keys:
            mapping[key] = tag_label_name(key)
        names = []
        for name in mapping.values():
            if name not in names:
                names.append(name)
        return cls(MappingProxyType(mapping), tuple(names))

    def empty_labels(self) -> dict:
        return {name: "" for name in self.label_names}

    def labels_for(self, tags) -> dict:
        """Label fragment for a provider tag list ([{"Key": .., "Value": ..}])."""
        labels = self.empty_labels()
        values = {t.get("Key"): t.get("Value") or "" for t in tags or ()}
        for key, name in self.tag_labels.items():
            if key in values:
                labels[name] = values[key]
        return labels
