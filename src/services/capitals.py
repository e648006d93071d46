"""
Capital city lookup keyed by canonical country name. Coordinates are (lon, lat).
"""

from __future__ import annotations

CAPITALS_BY_COUNTRY: dict[str, tuple[str, tuple[float, float]]] = {
    "Afghanistan": ("Kabul", (69.1723, 34.5281)),
    "Albania": ("Tirana", (19.8187, 41.3275)),
    "Algeria": ("Algiers", (3.0588, 36.7538)),
    "Andorra": ("Andorra la Vella", (1.5218, 42.5063)),
    "Angola": ("Luanda", (13.2344, -8.8390)),
    "Argentina": ("Buenos Aires", (-58.3816, -34.6037)),
    "Armenia": ("Yerevan", (44.5152, 40.1872)),
    "Australia": ("Canberra", (149.1300, -35.2809)),
    "Austria": ("Vienna", (16.3738, 48.2082)),
    "Azerbaijan": ("Baku", (49.8671, 40.4093)),
    "Bahamas": ("Nassau", (-77.3554, 25.0443)),
    "Bahrain": ("Manama", (50.5860, 26.2285)),
    "Bangladesh": ("Dhaka", (90.4125, 23.8103)),
    "Barbados": ("Bridgetown", (-59.6167, 13.0975)),
    "Belarus": ("Minsk", (27.5615, 53.9045)),
    "Belgium": ("Brussels", (4.3517, 50.8503)),
    "Belize": ("Belmopan", (-88.7590, 17.2510)),
    "Benin": ("Porto-Novo", (2.6289, 6.4969)),
    "Bhutan": ("Thimphu", (89.6390, 27.4728)),
    "Bolivia": ("Sucre", (-65.2627, -19.0196)),
    "Bosnia and Herzegovina": ("Sarajevo", (18.4131, 43.8563)),
    "Botswana": ("Gaborone", (25.9231, -24.6282)),
    "Brazil": ("Brasilia", (-47.8825, -15.7942)),
    "Brunei": ("Bandar Seri Begawan", (114.9398, 4.9031)),
    "Bulgaria": ("Sofia", (23.3219, 42.6977)),
    "Burkina Faso": ("Ouagadougou", (-1.5197, 12.3714)),
    "Burundi": ("Gitega", (29.9246, -3.4271)),
    "Cambodia": ("Phnom Penh", (104.9282, 11.5564)),
    "Cameroon": ("Yaounde", (11.5021, 3.8480)),
    "Canada": ("Ottawa", (-75.6972, 45.4215)),
    "Cape Verde": ("Praia", (-23.5087, 14.9330)),
    "Central African Republic": ("Bangui", (18.5582, 4.3947)),
    "Chad": ("N'Djamena", (15.0444, 12.1348)),
    "Chile": ("Santiago", (-70.6693, -33.4489)),
    "China": ("Beijing", (116.4074, 39.9042)),
    "Colombia": ("Bogota", (-74.0721, 4.7110)),
    "Comoros": ("Moroni", (43.2551, -11.7172)),
    "Costa Rica": ("San Jose", (-84.0907, 9.9281)),
    "Croatia": ("Zagreb", (15.9819, 45.8150)),
    "Cuba": ("Havana", (-82.3666, 23.1136)),
    "Cyprus": ("Nicosia", (33.3823, 35.1856)),
    "Czech Republic": ("Prague", (14.4378, 50.0755)),
    "Democratic Republic of the Congo": ("Kinshasa", (15.2663, -4.4419)),
    "Denmark": ("Copenhagen", (12.5683, 55.6761)),
    "Djibouti": ("Djibouti", (43.1456, 11.5721)),
    "Dominican Republic": ("Santo Domingo", (-69.9312, 18.4861)),
    "Ecuador": ("Quito", (-78.4678, -0.1807)),
    "Egypt": ("Cairo", (31.2357, 30.0444)),
    "El Salvador": ("San Salvador", (-89.2182, 13.6929)),
    "Equatorial Guinea": ("Malabo", (8.7832, 3.7504)),
    "Eritrea": ("Asmara", (38.9251, 15.3229)),
    "Estonia": ("Tallinn", (24.7536, 59.4370)),
    "Eswatini": ("Mbabane", (31.1367, -26.3054)),
    "Ethiopia": ("Addis Ababa", (38.7578, 8.9806)),
    "Fiji": ("Suva", (178.4419, -18.1416)),
    "Finland": ("Helsinki", (24.9384, 60.1699)),
    "France": ("Paris", (2.3522, 48.8566)),
    "Gabon": ("Libreville", (9.4673, 0.4162)),
    "Gambia": ("Banjul", (-16.5790, 13.4549)),
    "Georgia": ("Tbilisi", (44.8271, 41.7151)),
    "Germany": ("Berlin", (13.4050, 52.5200)),
    "Ghana": ("Accra", (-0.1870, 5.6037)),
    "Greece": ("Athens", (23.7275, 37.9838)),
    "Guatemala": ("Guatemala City", (-90.5069, 14.6349)),
    "Guinea": ("Conakry", (-13.5784, 9.6412)),
    "Guinea-Bissau": ("Bissau", (-15.5977, 11.8817)),
    "Guyana": ("Georgetown", (-58.1553, 6.8013)),
    "Haiti": ("Port-au-Prince", (-72.3074, 18.5944)),
    "Honduras": ("Tegucigalpa", (-87.1921, 14.0723)),
    "Hungary": ("Budapest", (19.0402, 47.4979)),
    "Iceland": ("Reykjavik", (-21.8174, 64.1265)),
    "India": ("New Delhi", (77.2090, 28.6139)),
    "Indonesia": ("Jakarta", (106.8456, -6.2088)),
    "Iran": ("Tehran", (51.3890, 35.6892)),
    "Iraq": ("Baghdad", (44.3615, 33.3128)),
    "Ireland": ("Dublin", (-6.2603, 53.3498)),
    "Israel": ("Jerusalem", (35.2137, 31.7683)),
    "Italy": ("Rome", (12.4964, 41.9028)),
    "Ivory Coast": ("Yamoussoukro", (-5.2767, 6.8276)),
    "Jamaica": ("Kingston", (-76.7936, 17.9712)),
    "Japan": ("Tokyo", (139.6503, 35.6762)),
    "Jordan": ("Amman", (35.9106, 31.9539)),
    "Kazakhstan": ("Astana", (71.4704, 51.1605)),
    "Kenya": ("Nairobi", (36.8219, -1.2921)),
    "Kosovo": ("Pristina", (21.1655, 42.6629)),
    "Kuwait": ("Kuwait City", (47.9774, 29.3759)),
    "Kyrgyzstan": ("Bishkek", (74.5698, 42.8746)),
    "Laos": ("Vientiane", (102.6331, 17.9757)),
    "Latvia": ("Riga", (24.1052, 56.9496)),
    "Lebanon": ("Beirut", (35.5018, 33.8938)),
    "Lesotho": ("Maseru", (27.4833, -29.3151)),
    "Liberia": ("Monrovia", (-10.8047, 6.3156)),
    "Libya": ("Tripoli", (13.1913, 32.8872)),
    "Liechtenstein": ("Vaduz", (9.5209, 47.1410)),
    "Lithuania": ("Vilnius", (25.2797, 54.6872)),
    "Luxembourg": ("Luxembourg", (6.1296, 49.6116)),
    "Madagascar": ("Antananarivo", (47.5079, -18.8792)),
    "Malawi": ("Lilongwe", (33.7741, -13.9626)),
    "Malaysia": ("Kuala Lumpur", (101.6869, 3.1390)),
    "Maldives": ("Male", (73.5093, 4.1755)),
    "Mali": ("Bamako", (-8.0029, 12.6392)),
    "Malta": ("Valletta", (14.5146, 35.8989)),
    "Mauritania": ("Nouakchott", (-15.9785, 18.0735)),
    "Mauritius": ("Port Louis", (57.5012, -20.1609)),
    "Mexico": ("Mexico City", (-99.1332, 19.4326)),
    "Moldova": ("Chisinau", (28.8638, 47.0105)),
    "Monaco": ("Monaco", (7.4246, 43.7384)),
    "Mongolia": ("Ulaanbaatar", (106.9057, 47.8864)),
    "Montenegro": ("Podgorica", (19.2594, 42.4304)),
    "Morocco": ("Rabat", (-6.8498, 33.9716)),
    "Mozambique": ("Maputo", (32.5732, -25.9692)),
    "Myanmar": ("Naypyidaw", (96.1297, 19.7633)),
    "Namibia": ("Windhoek", (17.0658, -22.5609)),
    "Nepal": ("Kathmandu", (85.3240, 27.7172)),
    "Netherlands": ("Amsterdam", (4.9041, 52.3676)),
    "New Zealand": ("Wellington", (174.7762, -41.2865)),
    "Nicaragua": ("Managua", (-86.2514, 12.1150)),
    "Niger": ("Niamey", (2.1098, 13.5116)),
    "Nigeria": ("Abuja", (7.3986, 9.0765)),
    "North Korea": ("Pyongyang", (125.7625, 39.0392)),
    "North Macedonia": ("Skopje", (21.4254, 41.9981)),
    "Norway": ("Oslo", (10.7522, 59.9139)),
    "Oman": ("Muscat", (58.4059, 23.5880)),
    "Pakistan": ("Islamabad", (73.0479, 33.6844)),
    "Palestine": ("Ramallah", (35.2042, 31.9038)),
    "Panama": ("Panama City", (-79.5199, 8.9824)),
    "Papua New Guinea": ("Port Moresby", (147.1803, -9.4438)),
    "Paraguay": ("Asuncion", (-57.5759, -25.2637)),
    "Peru": ("Lima", (-77.0428, -12.0464)),
    "Philippines": ("Manila", (120.9842, 14.5995)),
    "Poland": ("Warsaw", (21.0122, 52.2297)),
    "Portugal": ("Lisbon", (-9.1393, 38.7223)),
    "Qatar": ("Doha", (51.5310, 25.2854)),
    "Republic of the Congo": ("Brazzaville", (15.2832, -4.2634)),
    "Romania": ("Bucharest", (26.1025, 44.4268)),
    "Russia": ("Moscow", (37.6173, 55.7558)),
    "Rwanda": ("Kigali", (30.0619, -1.9441)),
    "Saudi Arabia": ("Riyadh", (46.6753, 24.7136)),
    "Senegal": ("Dakar", (-17.4677, 14.7167)),
    "Serbia": ("Belgrade", (20.4489, 44.7866)),
    "Sierra Leone": ("Freetown", (-13.2317, 8.4657)),
    "Singapore": ("Singapore", (103.8198, 1.3521)),
    "Slovakia": ("Bratislava", (17.1077, 48.1486)),
    "Slovenia": ("Ljubljana", (14.5058, 46.0569)),
    "Somalia": ("Mogadishu", (45.3182, 2.0469)),
    "South Africa": ("Pretoria", (28.2293, -25.7479)),
    "South Korea": ("Seoul", (126.9780, 37.5665)),
    "South Sudan": ("Juba", (31.5825, 4.8594)),
    "Spain": ("Madrid", (-3.7038, 40.4168)),
    "Sri Lanka": ("Sri Jayawardenepura Kotte", (79.8880, 6.8868)),
    "Sudan": ("Khartoum", (32.5599, 15.5007)),
    "Suriname": ("Paramaribo", (-55.2038, 5.8520)),
    "Sweden": ("Stockholm", (18.0686, 59.3293)),
    "Switzerland": ("Bern", (7.4474, 46.9480)),
    "Syria": ("Damascus", (36.2913, 33.5138)),
    "Taiwan": ("Taipei", (121.5654, 25.0330)),
    "Tajikistan": ("Dushanbe", (68.7870, 38.5598)),
    "Tanzania": ("Dodoma", (35.7516, -6.1630)),
    "Thailand": ("Bangkok", (100.5018, 13.7563)),
    "Timor-Leste": ("Dili", (125.5603, -8.5569)),
    "Togo": ("Lome", (1.2255, 6.1375)),
    "Trinidad and Tobago": ("Port of Spain", (-61.5190, 10.6596)),
    "Tunisia": ("Tunis", (10.1815, 36.8065)),
    "Turkey": ("Ankara", (32.8597, 39.9334)),
    "Turkmenistan": ("Ashgabat", (58.3794, 37.9601)),
    "Uganda": ("Kampala", (32.5825, 0.3476)),
    "Ukraine": ("Kyiv", (30.5234, 50.4501)),
    "United Arab Emirates": ("Abu Dhabi", (54.3773, 24.4539)),
    "United Kingdom": ("London", (-0.1276, 51.5072)),
    "United States": ("Washington, D.C.", (-77.0369, 38.9072)),
    "Uruguay": ("Montevideo", (-56.1645, -34.9011)),
    "Uzbekistan": ("Tashkent", (69.2401, 41.2995)),
    "Vatican City": ("Vatican City", (12.4534, 41.9029)),
    "Venezuela": ("Caracas", (-66.9036, 10.4806)),
    "Vietnam": ("Hanoi", (105.8342, 21.0278)),
    "Yemen": ("Sanaa", (44.2066, 15.3694)),
    "Zambia": ("Lusaka", (28.3228, -15.3875)),
    "Zimbabwe": ("Harare", (31.0335, -17.8252)),
}

# Non-sovereign regions resolve to a representative city.
EXTRA_CAPITALS: dict[str, tuple[str, tuple[float, float]]] = {
    "European Union": ("Brussels", (4.3517, 50.8503)),
    "EU": ("Brussels", (4.3517, 50.8503)),
    "Gaza Strip": ("Gaza City", (34.4667, 31.5167)),
    "Gaza": ("Gaza City", (34.4667, 31.5167)),
}
