"""Wire format shared by the index and peers."""
