"""Curated consumer-goods brand names found on Brazilian retail invoices.

Entries are display names.  Matching is case-insensitive, accent-insensitive
and whole-word; multi-word brands accept any punctuation or spacing between
their words (``COCA-COLA``, ``COCA COLA``).
"""

from __future__ import annotations

from typing import Tuple


DAIRY = (
    "Italac", "Tirol", "Parmalat", "Piracanjuba", "Elegê", "Batavo", "Nestlé",
    "Danone", "Vigor", "Itambé", "Betânia", "Ninho", "Molico", "Frimesa",
    "Polenghi", "Président", "Tirolez", "Qualy", "Doriana", "Becel", "Claybom",
    "Activia", "Yakult", "Danoninho", "Chambinho", "Leitíssimo", "Aviação",
    "Scala", "Lacfree", "Santa Clara", "Shefa", "Verde Campo",
    "Quatá", "Cativa", "Languiru", "Dália", "Catupiry", "Poços de Caldas",
)

MEAT_AND_FROZEN = (
    "Sadia", "Perdigão", "Seara", "Friboi", "Swift", "Aurora", "Rezende",
    "Pif Paf", "Copacol", "Frangosul", "Pamplona", "Alibem", "Marba",
    "Excelsior", "Frimesa", "Czar", "McCain", "Kibon", "Bem Bom", "Sulita",
    "Cotochés", "Maturatta", "Frigol", "Minerva",
)

GRAINS_AND_PANTRY = (
    "Camil", "Tio João", "Kicaldo", "Prato Fino", "Namorado", "Urbano",
    "Blue Ville", "Broto Legal", "Kisabor", "Sepé", "Pileco",
    "União", "Da Barra", "Guarani", "Caravelas", "Alto Alegre", "Delta",
    "Liza", "Soya", "Cocamar", "Gallo", "Andorinha", "Borges", "Carbonell",
    "Dona Benta", "Anaconda", "Yoki", "Kimura", "Sinhá", "Maizena",
    "Fleischmann", "Royal", "Dr Oetker", "Mavalério", "Renata", "Barilla",
    "Adria", "Santa Amália", "Petybon", "Dona Benta", "Vitarella", "Divella",
    "Nissin", "Miojo", "Maggi", "Knorr", "Sazón", "Kitano", "Hellmann's",
    "Heinz", "Quero", "Fugini", "Arisco", "Elefante", "Pomarola", "Cica",
    "Predilecta", "Gomes da Costa", "Coqueiro", "Bonduelle", "Olé", "Jurema",
    "Ajinomoto", "Hikari", "Cisne", "Lebre", "Sakura", "Mãe Terra",
    "Quaker", "Kellogg's", "Sucrilhos", "Nesfit", "Neston", "Mucilon",
    "Jasmine", "Vapza", "Karui", "Hemmer", "Castelo", "Tambaú", "Sinhá",
)

COFFEE = (
    "Pilão", "Melitta", "3 Corações", "Três Corações", "Café do Ponto",
    "Caboclo", "Pelé", "Nescafé", "Dolce Gusto", "Santa Clara", "Utam",
    "Café Brasileiro", "Marata", "Baggio", "Orfeu", "Café Seleto",
)

BAKERY_AND_SNACKS = (
    "Bauducco", "Marilan", "Piraquê", "Tostines", "Trakinas", "Oreo",
    "Passatempo", "Negresco", "Club Social", "Triunfo", "Mabel", "Fortaleza",
    "Richester", "Isabela", "Aymoré", "Parati", "Pit Stop", "Pullman",
    "Wickbold", "Seven Boys", "Plus Vita", "Nutrella", "Visconti", "Panco",
    "Elma Chips", "Ruffles", "Doritos", "Cheetos", "Fandangos", "Pringles",
    "Lay's", "Torcida", "Cebolitos", "Baconzitos", "Dori", "Fini", "Haribo",
    "Halls", "Mentos", "Trident", "Freegells", "Peccin", "Florestal",
    "Riclan", "Arcor", "Santa Edwiges", "Jasmine", "Bono", "Calipso",
    "Bela Vista", "Zabet",
)

CHOCOLATE = (
    "Lacta", "Garoto", "Hershey's", "Kopenhagen", "Cacau Show", "Ferrero",
    "Kinder", "Nutella", "Toddy", "Nescau", "Ovomaltine", "Milka", "Lindt",
    "Talento", "Baton", "Sonho de Valsa", "Serenata de Amor",
    "Diamante Negro", "Laka", "Twix", "Snickers", "Kit Kat", "Trento",
    "Prestígio", "Suflair", "Alpino", "Charge", "Chokito", "Galak",
    "Toddynho",
)

BEVERAGES = (
    "Coca Cola", "Pepsi", "Antarctica", "Fanta", "Sprite", "Kuat",
    "Schweppes", "Sukita", "Dolly", "Itubaína", "Tubaína", "Guaraná Jesus",
    "Crystal", "Bonafont", "Minalba", "São Lourenço", "Indaiá", "Lindoya",
    "Del Valle", "Maguary", "Su Fresh", "Tial", "Ades", "Natural One",
    "Tang", "Clight", "Mid", "Red Bull", "Monster",
    "TNT", "Gatorade", "Powerade", "Skol", "Brahma", "Heineken",
    "Budweiser", "Stella Artois", "Amstel", "Itaipava", "Bohemia", "Corona",
    "Schin", "Petra", "Eisenbahn", "Devassa", "Kaiser", "Glacial",
    "Proibida", "Spaten", "Patagonia", "Colorado", "Baden Baden",
    "Smirnoff", "Absolut", "Johnnie Walker", "Jack Daniel's", "Ypióca",
    "Velho Barreiro", "Pitú", "Campari", "Martini", "Chandon", "Salton",
    "Casa Valduga", "Miolo", "Periquita", "Sagatiba", "Jägermeister",
    "Chivas", "Ballantine's", "Red Label", "Black Label", "Catuaba Selvagem",
)

CLEANING = (
    "Omo", "Ariel", "Brilhante", "Tixan", "Ypê", "Surf", "Minuano", "Limpol",
    "Veja", "Ajax", "Pinho Sol", "Cif", "Mr Músculo", "Sanol", "Harpic",
    "Lysoform", "Qboa", "Candida", "Bombril", "Assolan", "Scotch Brite",
    "Comfort", "Downy", "Fofo", "Mon Bijou", "Vanish", "Bom Ar", "Glade",
    "Raid", "SBP", "Baygon", "Ufe", "Brilux", "Urca", "Flash Limp",
    "Kalipto", "Rodasol", "Girando Sol", "Condor",
    "Bettanin", "Noviça", "Perfex", "Flor de Ypê", "Sapólio Radium",
)

HYGIENE = (
    "Neve", "Personal", "Scott", "Snob", "Mili", "Sublime", "Kleenex",
    "Colgate", "Sorriso", "Oral B", "Close Up", "Sensodyne", "Listerine",
    "Dove", "Rexona", "Nivea", "Axe", "Old Spice", "Gillette", "Bic",
    "Johnson's", "Seda", "Pantene", "Elseve", "Tresemmé", "Head Shoulders",
    "Palmolive", "Lux", "Protex", "Francis", "Phebo", "Granado", "Natura",
    "Boticário", "Eudora", "Avon", "Monange", "Intimus", "Always",
    "Carefree", "Sempre Livre", "Huggies", "Pampers", "MamyPoko", "Babysec",
    "Plenitud", "Tena", "Garnier", "L'Oréal", "Niely", "Salon Line",
    "Skala", "Darling", "Above", "Herbíssimo", "Soffie", "Cottonbaby",
    "Needs", "Veet", "Prestobarba", "Closeup", "Dental Clean", "Tandy",
)

PHARMACY = (
    "Neosaldina", "Dorflex", "Torsilax", "Tylenol", "Novalgina", "Buscopan",
    "Medley", "EMS", "Eurofarma", "Neo Química", "Cimed", "Prati Donaduzzi",
    "Germed", "Sanofi", "Bayer", "Aché", "Biolab", "Teuto", "Legrand",
    "Hypera", "Cristália", "Vitamedic", "Geolab", "Sandoz", "Pfizer",
    "Novartis", "Roche", "Libbs", "Apsen", "Mantecorp", "Eurofarma",
    "Multilab", "Natulab", "Herbarium", "Nutrilatina",
    "Centrum", "Redoxon", "Cewin", "Engov", "Estomazil", "Eno",
    "Benegrip", "Cimegripe", "Resfenol", "Coristina", "Vick",
    "Strepsils", "Advil", "Doralgina", "Epocler",
)

PETS = (
    "Pedigree", "Whiskas", "Purina", "Friskies", "Golden", "Premier",
    "Royal Canin", "Dog Chow", "Cat Chow", "Special Dog", "Special Cat",
    "Magnus", "Pipicat", "Kelco", "GranPlus", "Guabi", "Sanol Dog",
)


def _unique(*groups: Tuple[str, ...]) -> Tuple[str, ...]:
    seen = set()
    ordered = []
    for group in groups:
        for name in group:
            key = name.lower()
            if key in seen:
                continue
            seen.add(key)
            ordered.append(name)
    return tuple(ordered)


BRANDS: Tuple[str, ...] = _unique(
    DAIRY,
    MEAT_AND_FROZEN,
    GRAINS_AND_PANTRY,
    COFFEE,
    BAKERY_AND_SNACKS,
    CHOCOLATE,
    BEVERAGES,
    CLEANING,
    HYGIENE,
    PHARMACY,
    PETS,
)


__all__ = ["BRANDS"]
