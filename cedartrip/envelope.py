"""Exchange envelope — the record linking an exported file back to its clips.

Pydantic models describe the JSON metadata written beside the exchange
file:

    {wav_path, sample_rate, num_channels, range_start, range_end,
     time_sel_start?, time_sel_end?, timestamp,
     items: [{track_guid, item_guid, track_idx, first_out_ch,
              playback_channels, chanmode, position, length, start_offs,
              take_name?, item_vol?, take_vol?}]}

decode_envelope() is the only way metadata gets back in: it either returns
one validated ExchangeEnvelope or raises EnvelopeError listing every
problem found.
"""

from __future__ import annotations

import json
import time
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import EnvelopeError


class ItemRecord(BaseModel):
    track_guid: str
    item_guid: str
    track_idx: int
    first_out_ch: int = Field(ge=0)
    playback_channels: int = Field(ge=1)
    chanmode: int
    position: float
    length: float = Field(gt=0)
    start_offs: float = 0.0
    take_name: Optional[str] = None
    item_vol: Optional[float] = None
    take_vol: Optional[float] = None
    playrate: Optional[float] = None
    downmix: Optional[bool] = None

    @property
    def end(self):
        return self.position + self.length


class ExchangeEnvelope(BaseModel):
    wav_path: str
    sample_rate: int = Field(gt=0)
    num_channels: int = Field(ge=1)
    range_start: float
    range_end: float
    time_sel_start: Optional[float] = None
    time_sel_end: Optional[float] = None
    timestamp: str = ""
    items: list[ItemRecord]

    @model_validator(mode="after")
    def _check_ranges(self):
        problems = []
        if not self.range_start < self.range_end:
            problems.append(
                f"range_start ({self.range_start}) must be before range_end ({self.range_end})"
            )
        if (self.time_sel_start is None) != (self.time_sel_end is None):
            problems.append("time_sel_start and time_sel_end must be given together")
        elif self.is_partial:
            if not self.time_sel_start < self.time_sel_end:
                problems.append("time selection is empty")
            if self.time_sel_start < self.range_start or self.time_sel_end > self.range_end:
                problems.append(
                    f"time selection {self.time_sel_start}-{self.time_sel_end} lies outside "
                    f"the exported range {self.range_start}-{self.range_end}"
                )
        for i, item in enumerate(self.items):
            if item.first_out_ch + item.playback_channels > self.num_channels:
                problems.append(
                    f"items[{i}] uses channels {item.first_out_ch}-"
                    f"{item.first_out_ch + item.playback_channels - 1} "
                    f"of a {self.num_channels}-channel file"
                )
        if problems:
            raise ValueError("; ".join(problems))
        return self

    @property
    def is_partial(self):
        return self.time_sel_start is not None and self.time_sel_end is not None

    @property
    def replace_region(self):
        """The span return clears: the time selection if any, else the full range."""
        if self.is_partial:
            return self.time_sel_start, self.time_sel_end
        return self.range_start, self.range_end


def build_envelope(
    records, allocation, sample_rate, range_start, range_end, wav_path, time_sel=None
) -> ExchangeEnvelope:
    items = [
        ItemRecord(
            track_guid=r.track_guid,
            item_guid=r.item_guid,
            track_idx=r.track_idx,
            first_out_ch=allocation[r.track_guid],
            playback_channels=r.playback_channels,
            chanmode=r.chanmode,
            position=r.position,
            length=r.length,
            start_offs=r.start_offset,
            take_name=r.take_name,
            item_vol=r.item_vol,
            take_vol=r.take_vol,
            playrate=r.playrate,
            downmix=r.is_downmix,
        )
        for r in records
    ]
    ts_start, ts_end = time_sel or (None, None)
    return ExchangeEnvelope(
        wav_path=str(wav_path),
        sample_rate=sample_rate,
        num_channels=allocation.total,
        range_start=range_start,
        range_end=range_end,
        items=items,
        time_sel_start=ts_start,
        time_sel_end=ts_end,
        timestamp=time.strftime("%Y-%m-%d %H:%M:%S"),
    )


def encode_envelope(envelope: ExchangeEnvelope) -> str:
    return envelope.model_dump_json(exclude_none=True)


def _format_errors(err: ValidationError):
    out = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e["loc"])
        msg = e["msg"].removeprefix("Value error, ")
        out.append(f"{loc}: {msg}" if loc else msg)
    return out


def decode_envelope(text) -> ExchangeEnvelope:
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise EnvelopeError(f"not valid JSON ({e})") from e
    if not isinstance(raw, dict):
        raise EnvelopeError(f"expected a JSON object, got {type(raw).__name__}")
    try:
        return ExchangeEnvelope.model_validate(raw)
    except ValidationError as e:
        raise EnvelopeError(_format_errors(e)) from e
