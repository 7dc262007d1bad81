from .id_mapping import IdMapping, id_mapping_table
