from catalog.models import Genre
from catalog.services.base import Repository


class GenreRepository(Repository[Genre]):
    resource = "Genre"
    model = Genre
    singular = "genre"
    plural = "genres"
