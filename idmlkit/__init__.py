"""idmlkit: read, edit and write Adobe InDesign IDML packages.

Packages:
    - core: geometry, transforms, units, colours, scene and story models,
      in-memory edits and undo history
    - indesign: package I/O (zip/unzip), spread and story parsers,
      serializer, save boundary, exporter and validator
    - export: static HTML+CSS preview of a spread
    - io: per-path locks for serialized saves

Usage:
    from idmlkit.indesign import IDMLParser, IDMLModifier

    doc = IDMLParser().parse_idml(Path("layout.idml"), cleanup_temp=False)
    frame = doc.get_spread(0).items[0]
"""

__version__ = "0.1.0"
