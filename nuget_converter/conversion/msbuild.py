from __future__ import annotations

import io
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

MSBUILD_NS = 'http://schemas.microsoft.com/developer/msbuild/2003'

UTF8_BOM = b'\xef\xbb\xbf'


def qualified(tag: str, namespace: Optional[str] = MSBUILD_NS) -> str:
  return f'{{{namespace}}}{tag}' if namespace else tag


def namespace_of(element: ET.Element) -> Optional[str]:
  tag = element.tag
  if isinstance(tag, str) and tag.startswith('{'):
    return tag[1:].split('}', 1)[0]
  return None


def local_name(element: ET.Element) -> str:
  tag = element.tag if isinstance(element.tag, str) else ''
  return tag.split('}', 1)[-1]


@dataclass
class ProjectDocument:
  """An MSBuild project file loaded with its comments and formatting intact."""

  path: Path
  tree: ET.ElementTree
  has_declaration: bool = True
  has_bom: bool = False

  @classmethod
  def load(cls, path: Path | str) -> 'ProjectDocument':
    path = Path(path)
    raw = path.read_bytes()
    has_bom = raw.startswith(UTF8_BOM)
    if has_bom:
      raw = raw[len(UTF8_BOM):]
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))
    parser.feed(raw)
    root = parser.close()
    return cls(
      path=path,
      tree=ET.ElementTree(root),
      has_declaration=raw.lstrip().startswith(b'<?xml'),
      has_bom=has_bom
    )

  @property
  def root(self) -> ET.Element:
    return self.tree.getroot()

  @property
  def namespace(self) -> Optional[str]:
    return namespace_of(self.root)

  def tag(self, name: str) -> str:
    return qualified(name, self.namespace)

  def iter(self, name: str, namespace: Optional[str] = None) -> Iterator[ET.Element]:
    return self.root.iter(qualified(name, namespace or self.namespace))

  def first(self, name: str, namespace: Optional[str] = None) -> Optional[ET.Element]:
    return next(self.iter(name, namespace), None)

  def append_child(self, parent: ET.Element, child: ET.Element) -> None:
    """Append ``child`` as the last child of ``parent`` keeping its indentation."""
    children = list(parent)
    if children:
      last = children[-1]
      child.tail = last.tail
      last.tail = parent.text
    else:
      child.tail = parent.text
      parent.text = None
    parent.append(child)

  def remove(self, parent: ET.Element, child: ET.Element) -> None:
    children = list(parent)
    index = children.index(child)
    if index == len(children) - 1:
      if index > 0:
        children[index - 1].tail = child.tail
      else:
        parent.text = None
    parent.remove(child)

  def save(self, path: Optional[Path] = None) -> None:
    target = Path(path or self.path)
    buffer = io.BytesIO()
    self.tree.write(
      buffer,
      encoding='utf-8',
      xml_declaration=self.has_declaration,
      default_namespace=self.namespace
    )
    payload = buffer.getvalue()
    if self.has_bom:
      payload = UTF8_BOM + payload
    target.write_bytes(payload)
